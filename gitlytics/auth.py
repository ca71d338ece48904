"""GitHub OAuth login and the per-request API client.

The OAuth callback stores ``{"user", "access_token", "expires_at"}`` under
``session["auth"]`` in Flask's signed, httpOnly session cookie. The rest of
the app only sees that through ``current_client()``, whose token resolver
prefers the visitor's token over the shared one.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import requests
from flask import Blueprint, current_app, g, jsonify, redirect, request, session

from gitlytics.client import GitHubClient
from gitlytics.config import Settings
from gitlytics.errors import GitHubAPIError
from gitlytics.tokens import SessionTokenProvider, SharedTokenProvider, TokenResolver

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
OAUTH_SCOPE = "read:user"
STATE_COOKIE = "oauth_state"
STATE_MAX_AGE = 600
SESSION_KEY = "auth"

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


class OAuthError(RuntimeError):
    pass


# -----------------------------
# Per-request client
# -----------------------------
def get_settings() -> Settings:
    return current_app.extensions["gitlytics"]["settings"]


def current_client() -> GitHubClient:
    """
    The GitHub client for this request, created on first use.

    Resolvers are per request so one visitor's token never serves another.
    The session object is captured here so worker threads can consult it
    outside the request context.
    """
    client = g.get("github_client")
    if client is None:
        settings = get_settings()
        sess = session._get_current_object()
        resolver = TokenResolver(
            [
                SessionTokenProvider(lambda: sess.get(SESSION_KEY)),
                SharedTokenProvider(settings.github_token),
            ],
            ttl=settings.token_cache_seconds,
        )
        client = GitHubClient(
            resolver,
            base_url=settings.api_base,
            session=current_app.extensions["gitlytics"]["http"],
            timeout=settings.timeout_seconds,
        )
        g.github_client = client
    return client


def _invalidate_credentials() -> None:
    client = g.get("github_client")
    if client is not None:
        client.resolver.invalidate()


def _active_session() -> Optional[Dict[str, Any]]:
    data = session.get(SESSION_KEY)
    if not data:
        return None
    if (data.get("expires_at") or 0) < time.time() * 1000:
        session.pop(SESSION_KEY, None)
        return None
    return data


# -----------------------------
# OAuth
# -----------------------------
def exchange_code(http: requests.Session, settings: Settings, code: str) -> str:
    resp = http.post(
        ACCESS_TOKEN_URL,
        json={
            "client_id": settings.client_id,
            "client_secret": settings.client_secret,
            "code": code,
            "redirect_uri": settings.redirect_uri,
        },
        headers={"Accept": "application/json"},
        timeout=settings.timeout_seconds,
    )
    if resp.status_code >= 300:
        raise OAuthError(f"Token exchange failed with status {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as e:
        raise OAuthError("Token exchange returned a malformed response") from e
    if data.get("error"):
        raise OAuthError(f"Token exchange failed: {data['error']}")
    token = data.get("access_token")
    if not token:
        raise OAuthError("Token exchange returned no access token")
    return token


@bp.route("/github", methods=["GET"])
def login():
    settings = get_settings()
    if not settings.client_id:
        return jsonify({"error": "GitHub OAuth is not configured. Please set GITHUB_CLIENT_ID."}), 500

    state = secrets.token_urlsafe(16)
    query = urlencode(
        {
            "client_id": settings.client_id,
            "redirect_uri": settings.redirect_uri,
            "scope": OAUTH_SCOPE,
            "state": state,
        }
    )
    resp = redirect(f"{AUTHORIZE_URL}?{query}")
    resp.set_cookie(
        STATE_COOKIE,
        state,
        max_age=STATE_MAX_AGE,
        httponly=True,
        secure=request.is_secure,
        samesite="Lax",
    )
    return resp


@bp.route("/callback/github", methods=["GET"])
def callback():
    error = request.args.get("error")
    if error:
        return redirect(f"/?{urlencode({'error': error})}")

    state = request.args.get("state")
    if not state or not secrets.compare_digest(state, request.cookies.get(STATE_COOKIE, "")):
        return redirect("/?error=invalid_state")

    code = request.args.get("code")
    if not code:
        return redirect("/?error=missing_code")

    settings = get_settings()
    if not settings.oauth_configured:
        return redirect("/?error=oauth_not_configured")

    client = current_client()
    try:
        token = exchange_code(client.session, settings, code)
        user = client.fetch_authenticated_user(token)
    except (OAuthError, GitHubAPIError, requests.RequestException) as e:
        logger.warning(f"OAuth callback failed: {e}")
        return redirect("/?error=oauth_failed")

    session.permanent = True
    session[SESSION_KEY] = {
        "user": {
            "id": user.id,
            "login": user.login,
            "name": user.name,
            "avatar_url": user.avatar_url,
            "email": user.email,
        },
        "access_token": token,
        "expires_at": int((time.time() + settings.session_hours * 3600) * 1000),
    }
    _invalidate_credentials()
    logger.info(f"User {user.login} logged in with GitHub")

    resp = redirect("/")
    resp.delete_cookie(STATE_COOKIE)
    return resp


@bp.route("/session", methods=["GET"])
def current_session():
    data = _active_session()
    if data is None:
        return jsonify({"session": None})
    # The access token never leaves through this endpoint.
    return jsonify({"session": {"user": data["user"], "expires_at": data["expires_at"]}})


@bp.route("/token", methods=["GET"])
def current_token():
    data = _active_session()
    return jsonify({"token": data["access_token"] if data else None})


@bp.route("/logout", methods=["POST"])
def logout():
    session.pop(SESSION_KEY, None)
    _invalidate_credentials()
    return jsonify({"success": True})
