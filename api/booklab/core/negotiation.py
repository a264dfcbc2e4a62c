from starlette.requests import Request

SCRIPT_MEDIA_TYPES = ("text/javascript", "application/javascript")


def wants_script(request: Request) -> bool:
    if request.query_params.get("format") == "js":
        return True
    accept = request.headers.get("accept", "").lower()
    return any(media_type in accept for media_type in SCRIPT_MEDIA_TYPES)


def wants_json(request: Request) -> bool:
    if request.query_params.get("format") == "json":
        return True
    return "application/json" in request.headers.get("accept", "").lower()


def is_browser_request(request: Request) -> bool:
    """True when an auth failure should redirect to sign-in instead of answering 401."""
    return not wants_script(request) and not wants_json(request)
