import os


DEFAULT_PASSWORD = os.environ.get("TEST_DEFAULT_PASSWORD", "asdasd123")

ROLE_EMAILS = {
    "admin": os.environ.get("TEST_ADMIN_EMAIL", "admin@rdrealty.com"),
    "recommending_approver": os.environ.get("TEST_REC_APPROVER_EMAIL", "michael.garcia@rdrealty.com"),
    "final_approver": os.environ.get("TEST_FINAL_APPROVER_EMAIL", "robert.cruz@rdrealty.com"),
    "staff": os.environ.get("TEST_STAFF_EMAIL", "jennifer.lopez@rdrealty.com"),
    "other_staff": os.environ.get("TEST_OTHER_STAFF_EMAIL", "james.wilson@rdrealty.com"),
    "purchaser": os.environ.get("TEST_PURCHASER_EMAIL", "david.tan@rdrealty.com"),
}

ROLE_PASSWORDS = {
    role: os.environ.get(f"TEST_{role.upper()}_PASSWORD", DEFAULT_PASSWORD)
    for role in ROLE_EMAILS
}


def get_backend_url() -> str | None:
    url = os.environ.get("MRS_BACKEND_URL")
    return url.rstrip("/") if url else None


def get_credentials(role: str) -> dict:
    email = ROLE_EMAILS.get(role)
    password = ROLE_PASSWORDS.get(role, DEFAULT_PASSWORD)
    return {"email": email, "password": password}
