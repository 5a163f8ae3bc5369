import asyncio

from prepme.db.store import get_document_store

USERS = "users"


async def get_user(uid: str) -> dict | None:
    if not uid:
        return None
    store = get_document_store()
    return await asyncio.to_thread(store.get, USERS, uid)


async def get_user_by_email(email: str) -> dict | None:
    if not email:
        return None
    store = get_document_store()
    rows = await asyncio.to_thread(store.query, USERS, [("email", "==", email)], None, 1)
    return rows[0] if rows else None


async def create_user(uid: str, name: str, email: str) -> None:
    store = get_document_store()
    await asyncio.to_thread(store.set, USERS, uid, {"name": name, "email": email})
