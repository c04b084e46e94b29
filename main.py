import uvicorn

from app.config import settings
from app.main import create_app

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
