"""
Tests for strict template rendering and the shipped templates.
"""

import pytest

from panel_installer.core.errors import MissingPlaceholderError, StepError
from panel_installer.core.services.templates import (
    list_templates,
    load_template,
    render,
    render_template,
    unresolved_tokens,
)

NGINX_VALUES = {
    "domain": "panel.test.local",
    "panel_path": "/var/www/pterodactyl",
    "php_socket": "/run/php/php8.3-fpm.sock",
}


class TestRender:
    def test_replaces_every_occurrence(self):
        out = render("<a> and <a> and <b>", {"a": "1", "b": "2"})
        assert out == "1 and 1 and 2"

    def test_extra_keys_ignored(self):
        assert render("<a>", {"a": "x", "unused": "y"}) == "x"

    def test_missing_keys_all_reported(self):
        with pytest.raises(MissingPlaceholderError) as exc_info:
            render("<domain> <php_socket> <user>", {"user": "www-data"}, name="site.conf")
        err = exc_info.value
        assert err.missing == ["domain", "php_socket"]
        assert "site.conf" in str(err)
        assert "<domain>" in str(err)

    def test_missing_placeholder_is_a_step_error(self):
        with pytest.raises(StepError):
            render("<x>", {})

    def test_no_tokens_left(self):
        out = render("server_name <domain>;", {"domain": "example.org"})
        assert unresolved_tokens(out) == []

    def test_non_placeholder_angle_brackets_untouched(self):
        text = "if (a < b) { <Directory> } <domain>"
        out = render(text, {"domain": "x"})
        assert out == "if (a < b) { <Directory> } x"

    def test_literal_substitution(self):
        out = render("<path>", {"path": "/srv/$HOME/\\1"})
        assert out == "/srv/$HOME/\\1"


class TestUnresolvedTokens:
    def test_order_of_first_use_without_duplicates(self):
        assert unresolved_tokens("<b> <a> <b> <c_1>") == ["b", "a", "c_1"]

    def test_empty(self):
        assert unresolved_tokens("plain text") == []


class TestShippedTemplates:
    def test_all_present(self):
        assert list_templates() == [
            "nginx.conf",
            "nginx_ssl.conf",
            "pteroq.service",
            "www-pterodactyl.conf",
        ]

    def test_unknown_template(self):
        with pytest.raises(FileNotFoundError, match="nginx.conf"):
            load_template("apache.conf")

    def test_nginx_renders_completely(self):
        out = render_template("nginx.conf", NGINX_VALUES)
        assert "server_name panel.test.local;" in out
        assert "fastcgi_pass unix:/run/php/php8.3-fpm.sock;" in out
        assert "root /var/www/pterodactyl/public;" in out
        assert unresolved_tokens(out) == []

    def test_nginx_ssl_uses_domain_certificates(self):
        out = render_template("nginx_ssl.conf", NGINX_VALUES)
        assert "/etc/letsencrypt/live/panel.test.local/fullchain.pem" in out
        assert "listen 443 ssl" in out
        assert unresolved_tokens(out) == []

    def test_nginx_requires_socket(self):
        with pytest.raises(MissingPlaceholderError) as exc_info:
            render_template("nginx.conf", {"domain": "x", "panel_path": "/p"})
        assert exc_info.value.missing == ["php_socket"]

    def test_queue_worker_unit(self):
        out = render_template(
            "pteroq.service",
            {
                "redis_service": "redis-server",
                "user": "www-data",
                "php_binary": "/usr/bin/php",
                "panel_path": "/var/www/pterodactyl",
            },
        )
        assert "After=redis-server.service" in out
        assert "User=www-data" in out
        assert "Restart=always" in out
        assert "RestartSec=5s" in out
        assert "ExecStart=/usr/bin/php /var/www/pterodactyl/artisan queue:work" in out

    def test_php_fpm_pool(self):
        out = render_template(
            "www-pterodactyl.conf",
            {"user": "nginx", "php_socket": "/var/run/php-fpm/pterodactyl.sock"},
        )
        assert "user = nginx" in out
        assert "listen = /var/run/php-fpm/pterodactyl.sock" in out
