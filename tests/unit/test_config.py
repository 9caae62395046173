from haseeb import config


def test_defaults(tmp_haseeb_dir):
    assert config.get_language() == "en"
    assert config.get_notification_timeout() == 2.0
    assert config.get_remote_url() is None


def test_language_persists(tmp_haseeb_dir):
    config.set_language("ar")
    config.Config.reset()
    assert config.get_language() == "ar"
    assert (tmp_haseeb_dir / "config.yaml").exists()


def test_remote_key_from_env(tmp_haseeb_dir, monkeypatch):
    monkeypatch.setenv(config.API_KEY_ENV, "secret")
    assert config.get_remote_key() == "secret"


def test_remote_url_trailing_slash(tmp_haseeb_dir):
    config.set_remote_url("https://example.supabase.co/")
    assert config.get_remote_url() == "https://example.supabase.co"


def test_remote_user_persists(tmp_haseeb_dir):
    assert config.get_remote_user() is None
    config.set_remote_user("user-1")
    config.Config.reset()
    assert config.get_remote_user() == "user-1"


def test_access_token_from_env(tmp_haseeb_dir, monkeypatch):
    monkeypatch.setenv(config.ACCESS_TOKEN_ENV, "jwt")
    assert config.get_access_token() == "jwt"
