from fastapi import HTTPException, Request

SYSTEM_ACTOR = "system"
MAX_ACTOR_LENGTH = 255


def get_current_actor(request: Request) -> str:
    """Who is performing the request, taken from the X-User-Id header.

    Recorded as changed_by / merged_by on history and provenance. Requests
    without the header act as the system user.
    """
    user_id = request.headers.get("X-User-Id", "").strip()
    if not user_id:
        return SYSTEM_ACTOR
    if len(user_id) > MAX_ACTOR_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid X-User-Id header")
    return user_id
