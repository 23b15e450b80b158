"""
Shared helpers for the API tests.
"""
PASSWORD = "Password123"


def login(client, email, password=PASSWORD):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response
