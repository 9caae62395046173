from fncli import UsageError, cli

from . import config
from .lib.errors import echo


@cli("haseeb config", name="language")
def config_language(language: str | None = None) -> None:
    """Show or set the display language (en, ar)"""
    if language is None:
        echo(config.get_language())
        return
    try:
        config.set_language(language)
    except ValueError as e:
        raise UsageError(str(e)) from e
    echo(f"language: {language}")


@cli(
    "haseeb config",
    name="remote",
    flags={"key": ["-k", "--key"], "user": ["-u", "--user"], "token": ["-t", "--token"]},
)
def config_remote(
    url: str, key: str | None = None, user: str | None = None, token: str | None = None
) -> None:
    """Point --cloud commands at a remote store; secrets go to the system keyring"""
    config.set_remote_url(url)
    if key:
        config.store_remote_key(key)
    if user:
        config.set_remote_user(user)
    if token:
        config.store_access_token(token)
    echo(f"remote: {config.get_remote_url()}")
    user_id = config.get_remote_user()
    if user_id:
        echo(f"user: {user_id}")
