def test_register_user(client):
    response = client.post(
        "/register",
        json={"email": "test@example.com", "password": "password123", "full_name": "Test User"},
    )
    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"

def test_register_duplicate_email(client, test_user):
    response = client.post(
        "/register",
        json={"email": test_user.email, "password": "password123", "full_name": "Someone Else"},
    )
    assert response.status_code == 400

def test_login_user(client, test_user):
    response = client.post(
        "/token",
        data={"username": "test@example.com", "password": "password123"},
    )
    assert response.status_code == 200
    data = response.json()
    assert "access_token" in data
    assert data["token_type"] == "bearer"

def test_login_wrong_password(client, test_user):
    response = client.post(
        "/token",
        data={"username": "test@example.com", "password": "wrong"},
    )
    assert response.status_code == 401

def test_read_current_user(client, auth_headers, test_user):
    response = client.get("/users/me", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == test_user.email
    assert data["id"] == test_user.id

def test_invalid_token_rejected(client):
    response = client.get("/users/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401

def test_register_then_split_and_settle(client):
    # Register two users
    token1 = client.post(
        "/register", json={"email": "user1@example.com", "password": "password123", "full_name": "User 1"}
    ).json()["access_token"]
    client.post("/register", json={"email": "user2@example.com", "password": "password123", "full_name": "User 2"})
    headers = {"Authorization": f"Bearer {token1}"}

    user1_id = client.get("/users/me", headers=headers).json()["id"]
    user2_id = user1_id + 1

    # User 1 pays 100, split equally: User 2 owes User 1 50
    res = client.post(
        "/expenses",
        headers=headers,
        json={
            "description": "Lunch",
            "amount": 100.0,
            "date": "2023-10-27T12:00:00",
            "payer_id": user1_id,
            "participant_ids": [user1_id, user2_id],
        },
    )
    assert res.status_code == 201

    res = client.get("/settlements", headers=headers)
    assert res.status_code == 200
    transfers = res.json()["transfers"]
    assert len(transfers) == 1
    assert transfers[0]["from_user_id"] == user2_id
    assert transfers[0]["to_user_id"] == user1_id
    assert transfers[0]["amount"] == 50.0
