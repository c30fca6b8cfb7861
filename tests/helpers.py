from typing import Dict

from fastapi.testclient import TestClient

PASSWORD = "Passw0rd!"


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login(c: TestClient, email: str = "ana@example.com", password: str = PASSWORD, **extra):
    return c.post("/api/auth/login", json={"email": email, "password": password, **extra})
