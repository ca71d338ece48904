"""
Gitlytics Dashboard (Flask)

What it does:
- Accepts a GitHub username
- Fetches profile, repositories, followers/following, starred repos, gists and
  commit samples from the GitHub REST API (paginated, rate-limit aware)
- Derives language distribution, follower mutuality and commit cadence
- Lets a visitor log in with GitHub (OAuth) so calls use their own quota

Setup:
  pip install -e .

Run:
  export GITHUB_TOKEN="github_pat_..."          # optional shared token
  export GITHUB_CLIENT_ID=... GITHUB_CLIENT_SECRET=... SECRET_KEY=...   # optional OAuth
  python app.py
  open http://localhost:5000

Endpoints:
  GET  /api/users/<username>                   -> profile
  GET  /api/users/<username>/dashboard         -> profile + repos + followers/following + rate limit + insights
  GET  /api/users/<username>/followers?page=N  -> next batch of followers ("load more")
  GET  /api/users/<username>/following?page=N  -> next batch of following
  GET  /api/users/<username>/repos?sort=&q=    -> sorted/filtered repositories
  GET  /api/users/<username>/starred           -> starred repositories
  GET  /api/users/<username>/gists             -> gists
  GET  /api/users/<username>/commit-stats      -> commit cadence over the last year
  GET  /api/rate-limit                         -> quota snapshot
  GET  /api/search/<kind>?q=                   -> GitHub search proxy
  GET  /api/auth/github, /api/auth/callback/github, /api/auth/session, /api/auth/token
  POST /api/auth/logout
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from typing import Any, Dict, Optional

import requests
from flask import Flask, jsonify, render_template, request
from werkzeug.exceptions import HTTPException

from gitlytics import analytics
from gitlytics.auth import bp as auth_bp
from gitlytics.auth import current_client, get_settings
from gitlytics.config import Settings
from gitlytics.errors import GitHubAPIError, NotFound, RateLimited
from gitlytics.models import to_jsonable

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

# Username validation (GitHub allows alnum and hyphen; max length 39)
USERNAME_RE = re.compile(r"^[A-Za-z0-9-]{1,39}$")

# Repositories, followers, following and rate limit are fetched together.
DASHBOARD_WORKERS = 4


class InvalidArgument(ValueError):
    pass


def _check_username(username: str) -> str:
    username = (username or "").strip()
    if not USERNAME_RE.match(username):
        raise InvalidArgument("Invalid GitHub username format.")
    return username


def _dump(obj: Any) -> Any:
    return to_jsonable(asdict(obj))


def _dump_list(items) -> list:
    return [_dump(i) for i in items]


def _page_arg() -> int:
    try:
        page = int(request.args.get("page", "1"))
    except ValueError:
        raise InvalidArgument("'page' must be a positive integer.")
    if page < 1:
        raise InvalidArgument("'page' must be a positive integer.")
    return page


# -----------------------------
# App factory
# -----------------------------
def create_app(settings: Optional[Settings] = None, http: Optional[requests.Session] = None) -> Flask:
    settings = settings or Settings.from_env()

    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=settings.secret_key,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        PERMANENT_SESSION_LIFETIME=dt.timedelta(hours=settings.session_hours),
    )
    app.extensions["gitlytics"] = {"settings": settings, "http": http or requests.Session()}
    app.register_blueprint(auth_bp)

    @app.errorhandler(InvalidArgument)
    def handle_bad_request(e):
        return jsonify({"error": str(e)}), 400

    @app.errorhandler(GitHubAPIError)
    def handle_github_error(e):
        if isinstance(e, NotFound):
            status = 404
        elif isinstance(e, RateLimited):
            status = 429
        else:
            status = 502
        body: Dict[str, Any] = {"error": str(e)}
        if e.hint:
            body["hint"] = e.hint
        return jsonify(body), status

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        logger.error(f"Unexpected server error: {e}", exc_info=True)
        return jsonify({"error": f"Unexpected server error: {e}"}), 500

    # -----------------------------
    # Routes
    # -----------------------------
    @app.route("/", methods=["GET"])
    def home():
        try:
            return render_template("index.html")
        except Exception:
            return (
                """
                <!doctype html>
                <html>
                <head><meta charset="utf-8"><title>Gitlytics</title></head>
                <body style="font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; padding: 24px;">
                  <h2>Gitlytics API is running</h2>
                  <p>Try: <code>/api/users/octocat/dashboard</code></p>
                  <p>Log in with GitHub at <code>/api/auth/github</code> for higher rate limits.</p>
                </body>
                </html>
                """,
                200,
                {"Content-Type": "text/html; charset=utf-8"},
            )

    @app.route("/healthz", methods=["GET"])
    def healthz():
        s = get_settings()
        return jsonify({"ok": True, "token_configured": bool(s.github_token), "oauth_configured": s.oauth_configured})

    @app.route("/api/users/<username>", methods=["GET"])
    def api_user(username):
        user = current_client().fetch_user(_check_username(username))
        return jsonify(_dump(user))

    @app.route("/api/users/<username>/dashboard", methods=["GET"])
    def api_dashboard(username):
        username = _check_username(username)
        s = get_settings()
        client = current_client()
        user = client.fetch_user(username)

        cap = s.max_followers_to_load
        followers_cap = cap if user.followers > cap else None
        following_cap = cap if user.following > cap else None

        with ThreadPoolExecutor(max_workers=DASHBOARD_WORKERS) as pool:
            repos_f = pool.submit(client.fetch_repositories, user.login)
            followers_f = pool.submit(client.fetch_followers, user.login, followers_cap)
            following_f = pool.submit(client.fetch_following, user.login, following_cap)
            rate_f = pool.submit(client.fetch_rate_limit)
            repos = repos_f.result()
            followers = followers_f.result()
            following = following_f.result()
            rate_limit = rate_f.result()

        logger.info(
            f"Loaded {len(repos)} repositories, {len(followers)} followers, "
            f"{len(following)} following for {user.login}"
        )
        insights = analytics.follower_insights(followers, following)
        return jsonify(
            {
                "user": _dump(user),
                "repositories": _dump_list(repos),
                "followers": _dump_list(followers),
                "following": _dump_list(following),
                "rate_limit": _dump(rate_limit),
                "languages": _dump(analytics.language_stats(repos)),
                "summary": _dump(analytics.summarize_repositories(repos)),
                "top_repositories": _dump_list(analytics.top_repositories(repos)),
                "follower_insights": {
                    **_dump(insights),
                    "approximate": (
                        followers_cap is not None
                        or following_cap is not None
                        or followers.partial
                        or following.partial
                    ),
                },
                "partial": {
                    "repositories": repos.partial,
                    "followers": followers.partial,
                    "following": following.partial,
                },
                "next_page": {"followers": followers.next_page, "following": following.next_page},
                "credential": client.resolver.resolve().source.value,
            }
        )

    def _more_users(username: str, fetch) -> Any:
        items = fetch(_check_username(username), get_settings().max_followers_to_load, _page_arg())
        return jsonify({"items": _dump_list(items), "partial": items.partial, "next_page": items.next_page})

    @app.route("/api/users/<username>/followers", methods=["GET"])
    def api_followers(username):
        return _more_users(username, current_client().fetch_followers)

    @app.route("/api/users/<username>/following", methods=["GET"])
    def api_following(username):
        return _more_users(username, current_client().fetch_following)

    @app.route("/api/users/<username>/repos", methods=["GET"])
    def api_repos(username):
        repos = current_client().fetch_repositories(_check_username(username))
        ordered = analytics.sort_repositories(
            repos, request.args.get("sort", "stars"), request.args.get("q", "")
        )
        return jsonify({"items": _dump_list(ordered), "partial": repos.partial})

    @app.route("/api/users/<username>/starred", methods=["GET"])
    def api_starred(username):
        items = current_client().fetch_starred(_check_username(username))
        return jsonify({"items": _dump_list(items), "partial": items.partial})

    @app.route("/api/users/<username>/gists", methods=["GET"])
    def api_gists(username):
        items = current_client().fetch_gists(_check_username(username))
        return jsonify({"items": _dump_list(items), "partial": items.partial})

    @app.route("/api/users/<username>/commit-stats", methods=["GET"])
    def api_commit_stats(username):
        username = _check_username(username)
        s = get_settings()
        client = current_client()
        repos = client.fetch_repositories(username)
        stats = analytics.fetch_user_commit_stats(
            client, username, repos, repo_limit=s.commit_repo_limit, per_repo=s.commits_per_repo
        )
        return jsonify(_dump(stats))

    @app.route("/api/rate-limit", methods=["GET"])
    def api_rate_limit():
        return jsonify(_dump(current_client().fetch_rate_limit()))

    @app.route("/api/search/<kind>", methods=["GET"])
    def api_search(kind):
        query = (request.args.get("q") or "").strip()
        if not query:
            return jsonify({"error": "Missing 'q'."}), 400
        try:
            per_page = int(request.args.get("per_page", "20"))
        except ValueError:
            return jsonify({"error": "'per_page' must be an integer."}), 400
        try:
            result = current_client().search(kind, query, max(1, min(per_page, 100)))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify(result)

    return app


app = create_app()


if __name__ == "__main__":
    port = int(os.getenv("PORT", "5000"))
    app.run(host="0.0.0.0", port=port, debug=True)
