from fastapi import APIRouter, Body, HTTPException, Depends
from google.oauth2 import id_token
from google.auth.transport import requests
from constants import Collections
from models.user import UserModel
from routes.deps import create_access_token, get_engine
from services.engine import ExpenseWorkflowEngine
from datetime import datetime
from logging_config import get_logger
from config import config
import asyncio

router = APIRouter(prefix="/api/auth", tags=["Authentication"])
logger = get_logger("auth")


def _user_payload(user: UserModel) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "photo_url": user.photo_url,
        "project_ids": user.project_ids,
    }


@router.post("/google")
async def google_login(token_data: dict = Body(...), engine: ExpenseWorkflowEngine = Depends(get_engine)):
    """
    Verifies Google ID Token.
    - If user exists -> Login, syncing name/photo from Google
    - If user DOES NOT exist -> Sign up as a stakeholder, then login
    """
    token = token_data.get("token")
    if not token:
        logger.warning("Login attempt with missing Google token")
        raise HTTPException(status_code=400, detail="Missing Google Token")

    try:
        # 1. Verify Google Token (fetches Google's certs, so off the event loop)
        try:
            id_info = await asyncio.to_thread(
                id_token.verify_oauth2_token, token, requests.Request(), config.GOOGLE_CLIENT_ID
            )
        except ValueError as e:
            logger.warning(f"Google token verification failed: {e}")
            raise HTTPException(status_code=401, detail="Invalid Google Token")

        email = (id_info.get("email") or "").lower()
        google_id = id_info.get("sub")
        name = id_info.get("name")
        picture = id_info.get("picture")

        if not email:
            logger.warning("Google token decoded but no email found")
            raise HTTPException(status_code=400, detail="Invalid Token: No email found")

        # 2. Check Database for Existing User
        store = engine.store
        existing = await store.query(Collections.USERS, [("email", "==", email)], limit=1)
        now = datetime.now()

        if not existing:
            user = UserModel(
                google_id=google_id,
                email=email,
                name=name or email.split("@")[0].title(),
                photo_url=picture,
                is_email_verified=bool(id_info.get("email_verified")),
                created_at=now,
                updated_at=now,
                last_login=now,
            )
            await store.set(Collections.USERS, user.id, user.model_dump())
            logger.info(f"New user signed up", extra={"data": {"email": email, "user_id": user.id}})
        else:
            # 3. Update User Info (Sync latest name/pic from Google)
            user = UserModel(**existing[0])
            update_data = {"last_login": now}
            if not user.google_id:
                update_data["google_id"] = google_id # Link account if not linked
            if picture and user.photo_url != picture:
                update_data["photo_url"] = picture
            if name and not user.name:
                update_data["name"] = name
            await store.update(Collections.USERS, user.id, set_fields=update_data)
            user = user.model_copy(update=update_data)

        # 4. Issue Internal JWT
        access_token = create_access_token(data={"sub": user.id})

        logger.info(
            f"Login successful",
            extra={"data": {"email": email, "user_id": user.id}}
        )

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": _user_payload(user),
        }

    except HTTPException:
        raise  # Re-raise HTTP exceptions as-is
    except Exception as e:
        logger.error(f"Authentication failed with unexpected error: {e}", exc_info=True)
        raise HTTPException(status_code=400, detail=f"Authentication failed: {str(e)}")


# ============ DEV-ONLY ENDPOINTS ============
# WARNING: Remove or disable these in production!

@router.get("/dev/users")
async def list_dev_users(engine: ExpenseWorkflowEngine = Depends(get_engine)):
    """[DEV ONLY] List all users for dev login selector."""
    if config.ENV == "production":
        raise HTTPException(status_code=404, detail="Not Found")
    logger.debug("Dev endpoint: listing users")
    users = await engine.store.query(Collections.USERS, limit=100)
    return [_user_payload(UserModel(**u)) for u in users]


@router.post("/dev/login/{user_id}")
async def dev_login(user_id: str, engine: ExpenseWorkflowEngine = Depends(get_engine)):
    """[DEV ONLY] Issue a JWT for any user, bypassing Google OAuth."""
    if config.ENV == "production":
        raise HTTPException(status_code=404, detail="Not Found")
    user_doc = await engine.store.get(Collections.USERS, user_id)
    if not user_doc:
        logger.warning(f"Dev login failed: user not found", extra={"data": {"user_id": user_id}})
        raise HTTPException(status_code=404, detail="User not found")

    user = UserModel(**user_doc)
    access_token = create_access_token(data={"sub": user.id})

    logger.info(f"Dev login successful", extra={"data": {"user_id": user.id, "email": user.email}})

    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user": _user_payload(user),
    }

@router.get("/dev/seed")
async def seed_dev_users_endpoint(engine: ExpenseWorkflowEngine = Depends(get_engine)):
    """[DEV ONLY] Seed test users."""
    if config.ENV == "production":
        raise HTTPException(status_code=404, detail="Not Found")

    test_users = [
        {"name": "Site Owner (Test)", "email": "owner@test.com", "role": "admin", "photo_url": "https://api.dicebear.com/7.x/avataaars/svg?seed=owner"},
        {"name": "Site Director (Test)", "email": "director@test.com", "photo_url": "https://api.dicebear.com/7.x/avataaars/svg?seed=director"},
        {"name": "Site Labour (Test)", "email": "labour@test.com", "photo_url": "https://api.dicebear.com/7.x/avataaars/svg?seed=labour"},
    ]

    count = 0
    for u in test_users:
        if not await engine.store.query(Collections.USERS, [("email", "==", u["email"])], limit=1):
            user = UserModel(**u)
            await engine.store.set(Collections.USERS, user.id, user.model_dump())
            count += 1

    logger.info(f"Dev seed completed", extra={"data": {"users_created": count}})
    return {"message": f"Seeded {count} users"}
