def test_roles_endpoint_valid_token(client, org_auth):
    res = client.get("/api/auth/roles", headers=org_auth.header("member"))
    assert res.status_code == 200
    assert res.json() == {"roles": ["member"], "role": "member"}


def test_roles_endpoint_owner(client, org_auth):
    res = client.get("/api/auth/roles", headers=org_auth.header("owner"))
    assert res.status_code == 200
    assert res.json()["role"] == "owner"


def test_roles_endpoint_missing_token(client, org_auth):
    res = client.get("/api/auth/roles")
    assert res.status_code == 401


def test_roles_endpoint_invalid_token(client, org_auth):
    res = client.get("/api/auth/roles", headers={"Authorization": "Bearer invalid"})
    assert res.status_code == 401
