"""IMS access-core CLI tool (imsctl)."""

import typer

app = typer.Typer(name="imsctl", help="IMS access-core CLI")
db_app = typer.Typer(help="Database management commands")
sessions_app = typer.Typer(help="Session maintenance commands")
app.add_typer(db_app, name="db")
app.add_typer(sessions_app, name="sessions")


def _services():
    from ims_backend.core.config import settings
    from ims_backend.core.container import build_services
    return build_services(settings)


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from sqlalchemy.engine import make_url
    from ims_backend.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host or "localhost",
        port=url.port or 3306,
        user=url.username,
        password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    import ims_backend.models  # noqa: F401
    from ims_backend.db.base import Base

    services = _services()
    Base.metadata.create_all(bind=services.session_factory.kw["bind"])
    typer.echo("Tables created")


@db_app.command("seed")
def db_seed():
    """Seed the permission catalog, default roles and the admin user."""
    from ims_backend.db.seeds.seed_permissions import seed_permissions
    from ims_backend.db.seeds.seed_roles import seed_roles
    from ims_backend.db.seeds.seed_admin import seed_admin

    db = _services().session_factory()
    try:
        seed_permissions(db)
        seed_roles(db)
        seed_admin(db)
    finally:
        db.close()
    typer.echo("All seeds applied")


@sessions_app.command("sweep")
def sessions_sweep():
    """Delete expired sessions and inactive ones past retention."""
    services = _services()
    db = services.session_factory()
    try:
        result = services.sessions.sweep_expired(db)
    finally:
        db.close()
    typer.echo(
        f"expired={result['expired']} inactive={result['inactive']} deleted={result['deleted']}"
    )


@sessions_app.command("set-limit")
def sessions_set_limit(
    user_id: int = typer.Argument(..., help="User ID"),
    max_sessions: int = typer.Argument(..., help="Concurrent session cap (1-10)"),
):
    """Set a user's concurrent session cap."""
    services = _services()
    db = services.session_factory()
    try:
        services.sessions.set_limit(db, user_id, max_sessions)
    finally:
        db.close()
    typer.echo(f"Session limit for user {user_id} set to {max_sessions}")


@sessions_app.command("list")
def sessions_list(
    token: str = typer.Option(..., envvar="IMS_TOKEN", help="Access token"),
    base_url: str = typer.Option("http://localhost:8000", help="API base URL"),
):
    """List the caller's active sessions via the API."""
    import httpx
    resp = httpx.get(
        f"{base_url}/api/user/sessions",
        headers={"Authorization": f"Bearer {token}"},
        timeout=10,
    )
    if resp.status_code != 200:
        typer.echo(f"Error {resp.status_code}: {resp.json().get('detail')}", err=True)
        raise typer.Exit(code=1)
    for s in resp.json():
        marker = "*" if s["is_current"] else " "
        typer.echo(
            f" {marker} {s['session_id']}  {s['device_type']}/{s['browser']}/{s['os']}  "
            f"last active {s['last_activity']}"
        )


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(True, help="Auto-reload"),
):
    """Start the FastAPI development server."""
    import uvicorn
    uvicorn.run("ims_backend.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
