import pytest

from conftest import auth_headers, signup


def checkout(client, headers, book_id):
    return client.post("/api/patron/checkout", json={"bookId": book_id}, headers=headers)


def give_back(client, headers, book_id):
    return client.post("/api/patron/return", json={"bookId": book_id}, headers=headers)


def test_root_and_health(client):
    assert client.get("/").text == "Library Management System API is running!"
    health = client.get("/health").json()
    assert health == {"status": "healthy", "db": True}


def test_checkout_book_success(client, patron, add_book):
    book = add_book(copies=2)
    response = checkout(client, patron["headers"], book["id"])

    assert response.status_code == 201
    assert response.json()["message"] == "Book checked out successfully."
    assert isinstance(response.json()["checkoutId"], int)
    assert client.get(f"/api/books/{book['id']}").json()["available_copies"] == 1


def test_checkout_requires_token(client, add_book):
    book = add_book()
    response = client.post("/api/patron/checkout", json={"bookId": book["id"]})
    assert response.status_code == 401


@pytest.mark.parametrize("book_id", ["abc", 0, -3, 1.5, None, True])
def test_checkout_invalid_book_id(client, patron, book_id):
    response = checkout(client, patron["headers"], book_id)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid bookId"


def test_checkout_without_body(client, patron):
    response = client.post("/api/patron/checkout", headers=patron["headers"])
    assert response.status_code == 400


def test_checkout_missing_book(client, patron):
    response = checkout(client, patron["headers"], 4242)
    assert response.status_code == 404


def test_checkout_accepts_numeric_string(client, patron, add_book):
    book = add_book()
    assert checkout(client, patron["headers"], str(book["id"])).status_code == 201


def test_fourth_checkout_hits_limit(client, patron, add_book):
    books = [add_book() for _ in range(4)]
    for book in books[:3]:
        assert checkout(client, patron["headers"], book["id"]).status_code == 201

    response = checkout(client, patron["headers"], books[3]["id"])
    assert response.status_code == 400
    assert response.json()["code"] == "limit_reached"
    assert response.json()["detail"] == "Checkout limit reached. You may only check out up to 3 books."

    records = client.get(f"/api/patron/checkouts/{patron['id']}").json()
    assert len(records) == 3
    assert client.get(f"/api/books/{books[3]['id']}").json()["available_copies"] == 1


def test_same_book_twice(client, patron, add_book):
    book = add_book(copies=3)
    assert checkout(client, patron["headers"], book["id"]).status_code == 201

    response = checkout(client, patron["headers"], book["id"])
    assert response.status_code == 400
    assert response.json()["code"] == "duplicate_checkout"
    assert client.get(f"/api/books/{book['id']}").json()["available_copies"] == 2


def test_no_copies_left(client, patron, add_book):
    book = add_book(copies=1)
    assert checkout(client, patron["headers"], book["id"]).status_code == 201

    other = auth_headers(signup(client, "second_patron").json()["token"])
    response = checkout(client, other, book["id"])
    assert response.status_code == 400
    assert response.json()["code"] == "unavailable"
    assert response.json()["detail"] == "Book is not available for checkout."
    assert client.get(f"/api/books/{book['id']}").json()["available_copies"] == 0


def test_return_book(client, patron, add_book):
    book = add_book(copies=1)
    checkout(client, patron["headers"], book["id"])

    response = give_back(client, patron["headers"], book["id"])
    assert response.status_code == 200
    assert response.json() == {"message": "Book returned successfully."}
    assert client.get(f"/api/books/{book['id']}").json()["available_copies"] == 1

    records = client.get(f"/api/patron/checkouts/{patron['id']}").json()
    assert len(records) == 1
    assert records[0]["returnDate"] is not None


def test_return_without_checkout(client, patron, add_book):
    book = add_book()
    response = give_back(client, patron["headers"], book["id"])
    assert response.status_code == 404
    assert response.json()["detail"] == "No active checkout found for this book and user."


def test_return_twice(client, patron, add_book):
    book = add_book()
    checkout(client, patron["headers"], book["id"])
    assert give_back(client, patron["headers"], book["id"]).status_code == 200
    assert give_back(client, patron["headers"], book["id"]).status_code == 404
    assert client.get(f"/api/books/{book['id']}").json()["available_copies"] == 1


def test_return_requires_token(client):
    assert client.post("/api/patron/return", json={"bookId": 1}).status_code == 401


def test_return_invalid_book_id(client, patron):
    assert give_back(client, patron["headers"], "nope").status_code == 400


def test_checkout_again_after_return(client, patron, add_book):
    book = add_book()
    checkout(client, patron["headers"], book["id"])
    give_back(client, patron["headers"], book["id"])
    assert checkout(client, patron["headers"], book["id"]).status_code == 201

    records = client.get(f"/api/patron/checkouts/{patron['id']}").json()
    assert [r["returnDate"] is None for r in records] == [True, False]


def test_list_checkouts_shape(client, patron, add_book):
    active = add_book(title="Moby Dick", author="Herman Melville")
    returned = add_book(title="War and Peace", author="Leo Tolstoy")
    checkout(client, patron["headers"], returned["id"])
    give_back(client, patron["headers"], returned["id"])
    checkout(client, patron["headers"], active["id"])

    records = client.get(f"/api/patron/checkouts/{patron['id']}").json()
    assert len(records) == 2

    current = records[0]
    assert set(current) == {"id", "bookId", "checkoutDate", "returnDate", "title", "author"}
    assert current["bookId"] == active["id"]
    assert current["title"] == "Moby Dick"
    assert current["returnDate"] is None

    past = records[1]
    assert past["bookId"] == returned["id"]
    assert past["author"] == "Leo Tolstoy"
    assert past["returnDate"] >= past["checkoutDate"]


def test_list_checkouts_for_user_without_any(client):
    assert client.get("/api/patron/checkouts/12345").json() == []


def test_returned_book_frees_a_slot(client, patron, add_book):
    books = [add_book() for _ in range(4)]
    for book in books[:3]:
        checkout(client, patron["headers"], book["id"])
    give_back(client, patron["headers"], books[0]["id"])
    assert checkout(client, patron["headers"], books[3]["id"]).status_code == 201


def test_token_for_deleted_user_is_not_found(client, add_book):
    # A valid token whose user no longer exists
    class Ghost:
        id = 999
        username = "ghost"
        role = "patron"

    token = client.app.state.token_service.issue(Ghost())
    book = add_book()
    assert checkout(client, auth_headers(token), book["id"]).status_code == 404
    assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 404


@pytest.mark.parametrize("book_id", ["99999999999999999999", 1e20, 2**63])
def test_checkout_rejects_ids_beyond_integer_range(client, patron, book_id):
    response = checkout(client, patron["headers"], book_id)
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid bookId"
    assert response.json()["code"] == "invalid_input"


def test_return_rejects_ids_beyond_integer_range(client, patron):
    response = give_back(client, patron["headers"], 99999999999999999999)
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_input"


def test_list_checkouts_rejects_ids_beyond_integer_range(client):
    response = client.get("/api/patron/checkouts/99999999999999999999")
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_input"
