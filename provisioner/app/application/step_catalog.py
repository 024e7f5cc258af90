# Copyright 2026 icecake0141
# SPDX-License-Identifier: Apache-2.0
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# This file was created or modified with the assistance of an AI (Large Language Model).
# Review required for correctness, security, and licensing.
"""Shell scripts and configuration files for the WordPress + SSL pipeline.

Only the sanitized domain, generated identifiers and the whitelisted PHP
version are interpolated into shell text. Free-text input (admin email, site
title) and secrets reach the target exclusively inside heredocs with a quoted
delimiter, so the shell never expands them and they never show up in a
process argument list.
"""

from __future__ import annotations

import logging
import re
import secrets
import string

from provisioner.app.domain.models import JobParameters, Step

logger = logging.getLogger(__name__)

SUPPORTED_PHP_VERSIONS = ("8.1", "8.2", "8.3", "8.4")
DEFAULT_PHP_VERSION = "8.3"

SHORT_TIMEOUT = 120.0
NETWORK_TIMEOUT = 300.0
PACKAGE_TIMEOUT = 900.0

WEB_ROOT_BASE = "/var/www"

# Secret alphabets never contain quote characters, backslash or "$".
DB_USER_ALPHABET = string.ascii_lowercase + string.digits
DB_PASSWORD_ALPHABET = string.ascii_letters + string.digits
SALT_ALPHABET = string.ascii_letters + string.digits + "!#%&()*+,-./:;<=>?@[]^_{|}~"

AUTH_KEY_NAMES = (
    "AUTH_KEY",
    "SECURE_AUTH_KEY",
    "LOGGED_IN_KEY",
    "NONCE_KEY",
    "AUTH_SALT",
    "SECURE_AUTH_SALT",
    "LOGGED_IN_SALT",
    "NONCE_SALT",
)

APT_INSTALL = "apt-get install -y -o DPkg::Lock::Timeout=300"

PHP_EXTENSIONS = (
    "fpm",
    "cli",
    "mysql",
    "curl",
    "gd",
    "mbstring",
    "xml",
    "zip",
    "intl",
    "soap",
    "bcmath",
    "imagick",
)


def sanitize_domain(domain: str) -> str:
    """Strip protocol, trailing slashes and anything outside [A-Za-z0-9.-]."""
    domain = re.sub(r"^https?://", "", domain.strip(), flags=re.IGNORECASE)
    domain = domain.rstrip("/")
    domain = re.sub(r"[^a-zA-Z0-9.\-]", "", domain)
    return domain.lower()


def coerce_php_version(version: str | None) -> str:
    """Return the version if whitelisted, otherwise the default."""
    if version in SUPPORTED_PHP_VERSIONS:
        return version
    if version:
        logger.info(
            "Unsupported PHP version %r, using %s", version, DEFAULT_PHP_VERSION
        )
    return DEFAULT_PHP_VERSION


def slugify_db_name(domain: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "_", domain[:20].lower()).strip("_")
    return f"wp_{slug}"


def random_string(length: int, alphabet: str) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


def single_line(text: str) -> str:
    """Drop control characters so text embeds safely on one heredoc line."""
    return "".join(ch for ch in text if ch.isprintable()).strip()


class StepCatalog:
    """Ordered provisioning steps for one job.

    Secrets are generated once at construction and reused by every step and
    config file, so one instance must live for the whole job.
    """

    def __init__(self, parameters: JobParameters):
        self.domain = sanitize_domain(parameters.domain)
        self.admin_email = single_line(parameters.admin_email)
        self.site_title = single_line(parameters.site_title)
        self.php_version = coerce_php_version(parameters.php_version)
        self.web_root = f"{WEB_ROOT_BASE}/{self.domain}"
        self.db_name = slugify_db_name(self.domain)
        self.db_user = "wpu_" + random_string(8, DB_USER_ALPHABET)
        self.db_password = random_string(32, DB_PASSWORD_ALPHABET)
        self.auth_keys = {
            name: random_string(64, SALT_ALPHABET) for name in AUTH_KEY_NAMES
        }

        v = self.php_version
        table = [
            ("Running pre-flight checks", 3, SHORT_TIMEOUT, self.preflight_checks),
            ("Updating system packages", 8, PACKAGE_TIMEOUT, self.update_system),
            ("Installing Nginx", 15, PACKAGE_TIMEOUT, self.install_nginx),
            ("Installing MySQL", 24, PACKAGE_TIMEOUT, self.install_mysql),
            (f"Installing PHP {v}", 36, PACKAGE_TIMEOUT, self.install_php),
            ("Securing MySQL", 42, SHORT_TIMEOUT, self.secure_mysql),
            ("Creating database", 48, SHORT_TIMEOUT, self.create_database),
            ("Downloading WordPress", 56, NETWORK_TIMEOUT, self.download_wordpress),
            ("Configuring WordPress", 62, SHORT_TIMEOUT, self.write_wp_config),
            ("Setting file permissions", 67, SHORT_TIMEOUT, self.set_permissions),
            ("Configuring Nginx", 74, SHORT_TIMEOUT, self.write_nginx_vhost),
            ("Reloading Nginx", 78, SHORT_TIMEOUT, self.reload_nginx),
            ("Installing Certbot", 83, PACKAGE_TIMEOUT, self.install_certbot),
            ("Issuing SSL certificate", 90, NETWORK_TIMEOUT, self.issue_certificate),
            (
                "Configuring SSL auto-renewal",
                95,
                NETWORK_TIMEOUT,
                self.configure_auto_renew,
            ),
            ("Verifying installation", 98, SHORT_TIMEOUT, self.verify_installation),
        ]
        self._steps = tuple(
            Step(ordinal=i, label=label, weight=weight, timeout=timeout, render=render)
            for i, (label, weight, timeout, render) in enumerate(table, start=1)
        )

    @property
    def steps(self) -> tuple[Step, ...]:
        return self._steps

    @property
    def admin_url(self) -> str:
        return f"https://{self.domain}/wp-admin"

    @property
    def fpm_socket(self) -> str:
        return f"/run/php/php{self.php_version}-fpm.sock"

    def command_for(self, step: Step) -> str:
        """Literal command body for a step of this catalog."""
        return step.render()

    # Step commands

    def preflight_checks(self) -> str:
        return "\n".join(
            [
                "set -e",
                'if [ "$(id -u)" -ne 0 ]; then echo "ERROR: root privileges are required"; exit 1; fi',
                "if ! command -v apt-get >/dev/null 2>&1; then "
                'echo "ERROR: apt-get not found, only Debian/Ubuntu targets are supported"; exit 1; fi',
                '. /etc/os-release && echo "Detected OS: ${PRETTY_NAME:-unknown}"',
                "free_kb=$(df -Pk / | awk 'NR==2 {print $4}')",
                'if [ "$free_kb" -lt 1048576 ]; then echo "ERROR: less than 1 GiB free on /"; exit 1; fi',
                "if ! getent hosts wordpress.org >/dev/null 2>&1; then "
                'echo "ERROR: cannot resolve wordpress.org"; exit 1; fi',
                'echo "Pre-flight checks passed"',
            ]
        )

    def update_system(self) -> str:
        return "\n".join(
            [
                "set -e",
                "export DEBIAN_FRONTEND=noninteractive",
                "apt-get update -y || (sleep 5 && apt-get update -y)",
                f"{APT_INSTALL} ca-certificates curl unzip software-properties-common",
            ]
        )

    def install_nginx(self) -> str:
        return "\n".join(
            [
                "set -e",
                "export DEBIAN_FRONTEND=noninteractive",
                'if command -v nginx >/dev/null 2>&1; then echo "Nginx already installed"; '
                f"else {APT_INSTALL} nginx; fi",
                "systemctl enable nginx",
                "systemctl start nginx",
                'systemctl is-active --quiet nginx || { echo "ERROR: nginx is not running"; exit 1; }',
                'echo "Nginx is active"',
            ]
        )

    def install_mysql(self) -> str:
        return "\n".join(
            [
                "set -e",
                "export DEBIAN_FRONTEND=noninteractive",
                'if command -v mysql >/dev/null 2>&1; then echo "MySQL/MariaDB already installed"; '
                f"else {APT_INSTALL} mysql-server || {APT_INSTALL} default-mysql-server; fi",
                'if systemctl list-unit-files | grep -q "^mysql.service"; then svc=mysql; '
                'elif systemctl list-unit-files | grep -q "^mariadb.service"; then svc=mariadb; '
                'else echo "ERROR: no mysql/mariadb systemd service found"; exit 1; fi',
                'systemctl enable "$svc"',
                'systemctl start "$svc"',
                "mysqladmin ping >/dev/null 2>&1 || "
                '{ echo "ERROR: database server is not responding"; exit 1; }',
                'echo "Database server is running ($svc)"',
            ]
        )

    def install_php(self) -> str:
        v = self.php_version
        packages = " ".join(f"php{v}-{ext}" for ext in PHP_EXTENSIONS)
        return "\n".join(
            [
                "set -e",
                "export DEBIAN_FRONTEND=noninteractive",
                f"if dpkg -s php{v}-fpm >/dev/null 2>&1 && dpkg -s php{v}-cli >/dev/null 2>&1; then",
                f'    echo "PHP {v} already installed"',
                "else",
                "    if grep -qi ubuntu /etc/os-release && "
                "! grep -rqs ondrej/php /etc/apt/sources.list /etc/apt/sources.list.d; then",
                "        add-apt-repository -y ppa:ondrej/php",
                "        apt-get update -y",
                "    fi",
                f"    {APT_INSTALL} {packages}",
                "fi",
                f"systemctl enable php{v}-fpm",
                f"systemctl start php{v}-fpm",
                f"test -S {self.fpm_socket} || "
                f'{{ echo "ERROR: PHP-FPM socket {self.fpm_socket} not found"; exit 1; }}',
                f'echo "PHP {v} FPM socket ready"',
            ]
        )

    def secure_mysql(self) -> str:
        return "\n".join(
            [
                "set -e",
                "mysql -e \"DELETE FROM mysql.user WHERE User=''\"",
                "mysql -e \"DELETE FROM mysql.user WHERE User='root' "
                "AND Host NOT IN ('localhost', '127.0.0.1', '::1')\"",
                'mysql -e "DROP DATABASE IF EXISTS test"',
                "mysql -e \"DELETE FROM mysql.db WHERE Db='test' OR Db='test\\\\_%'\"",
                'mysql -e "FLUSH PRIVILEGES"',
                'echo "Database server hardened"',
            ]
        )

    def create_database(self) -> str:
        sql = "\n".join(
            [
                f"CREATE DATABASE IF NOT EXISTS `{self.db_name}` "
                "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci;",
                f"CREATE USER IF NOT EXISTS '{self.db_user}'@'localhost' "
                f"IDENTIFIED BY '{self.db_password}';",
                f"GRANT ALL PRIVILEGES ON `{self.db_name}`.* "
                f"TO '{self.db_user}'@'localhost';",
                "FLUSH PRIVILEGES;",
            ]
        )
        return "\n".join(
            [
                "set -e",
                "mysql <<'SQLEOF'",
                sql,
                "SQLEOF",
                f"mysql -N -e \"SHOW DATABASES LIKE '{self.db_name}'\" | grep -qx '{self.db_name}' || "
                f'{{ echo "ERROR: database {self.db_name} was not created"; exit 1; }}',
                f'echo "Database {self.db_name} ready"',
            ]
        )

    def download_wordpress(self) -> str:
        root = self.web_root
        return "\n".join(
            [
                "set -e",
                f"mkdir -p {root}",
                f"if [ -f {root}/wp-includes/version.php ]; then",
                f'    echo "WordPress already present in {root}"',
                "else",
                '    tmp="$(mktemp)"',
                '    curl -fsSL https://wordpress.org/latest.tar.gz -o "$tmp"',
                f'    tar -xzf "$tmp" -C {root} --strip-components=1',
                '    rm -f "$tmp"',
                "fi",
                f"test -f {root}/wp-settings.php || "
                f'{{ echo "ERROR: WordPress files missing from {root}"; exit 1; }}',
                f'echo "WordPress extracted to {root}"',
            ]
        )

    def write_wp_config(self) -> str:
        path = f"{self.web_root}/wp-config.php"
        return "\n".join(
            [
                "set -e",
                f"cat > {path} <<'WPEOF'",
                self.wp_config(),
                "WPEOF",
                f"php{self.php_version} -l {path}",
            ]
        )

    def set_permissions(self) -> str:
        root = self.web_root
        return "\n".join(
            [
                "set -e",
                f"chown -R www-data:www-data {root}",
                f"find {root} -type d -exec chmod 755 {{}} \\;",
                f"find {root} -type f -exec chmod 644 {{}} \\;",
                f"chmod 640 {root}/wp-config.php",
                f'echo "Permissions applied to {root}"',
            ]
        )

    def write_nginx_vhost(self) -> str:
        available = f"/etc/nginx/sites-available/{self.domain}"
        enabled = f"/etc/nginx/sites-enabled/{self.domain}"
        return "\n".join(
            [
                "set -e",
                f"cat > {available} <<'NGINXEOF'",
                self.nginx_vhost(),
                "NGINXEOF",
                f"ln -sf {available} {enabled}",
                "rm -f /etc/nginx/sites-enabled/default",
                "nginx -t",
            ]
        )

    def reload_nginx(self) -> str:
        return "\n".join(
            [
                "set -e",
                "systemctl reload nginx || systemctl restart nginx",
                "systemctl is-active --quiet nginx || "
                '{ echo "ERROR: nginx is not running after reload"; exit 1; }',
                'echo "Nginx reloaded"',
            ]
        )

    def install_certbot(self) -> str:
        return "\n".join(
            [
                "set -e",
                "export DEBIAN_FRONTEND=noninteractive",
                "if command -v certbot >/dev/null 2>&1 && "
                "dpkg -s python3-certbot-nginx >/dev/null 2>&1; then",
                '    echo "Certbot already installed"',
                "else",
                f"    {APT_INSTALL} certbot python3-certbot-nginx",
                "fi",
                "certbot --version",
            ]
        )

    def issue_certificate(self) -> str:
        ini = f"/etc/letsencrypt/provision-{self.domain}.ini"
        live = f"/etc/letsencrypt/live/{self.domain}/fullchain.pem"
        return "\n".join(
            [
                "set -e",
                "mkdir -p /etc/letsencrypt",
                f"cat > {ini} <<'CERTEOF'",
                self.certbot_config(),
                "CERTEOF",
                f"chmod 600 {ini}",
                f"certbot run --config {ini}",
                f'test -f {live} || {{ echo "ERROR: certificate for {self.domain} not found"; exit 1; }}',
                f'echo "Certificate issued for {self.domain}"',
            ]
        )

    def configure_auto_renew(self) -> str:
        return "\n".join(
            [
                "set -e",
                'if systemctl list-unit-files | grep -q "^certbot.timer"; then',
                "    systemctl enable certbot.timer",
                "    systemctl start certbot.timer",
                "else",
                "    cat > /etc/cron.d/certbot-renew <<'CRONEOF'",
                '0 */12 * * * root certbot -q renew --deploy-hook "systemctl reload nginx"',
                "CRONEOF",
                "    chmod 644 /etc/cron.d/certbot-renew",
                "fi",
                "certbot renew --dry-run",
            ]
        )

    def verify_installation(self) -> str:
        d = self.domain
        return "\n".join(
            [
                "set -e",
                f"for svc in nginx php{self.php_version}-fpm; do",
                '    systemctl is-active --quiet "$svc" || { echo "ERROR: $svc is not active"; exit 1; }',
                "done",
                "mysqladmin ping >/dev/null 2>&1 || "
                '{ echo "ERROR: database server is not responding"; exit 1; }',
                "code=$(curl -sS -o /dev/null -w '%{http_code}' "
                f"--resolve {d}:443:127.0.0.1 https://{d}/wp-admin/install.php)",
                'case "$code" in',
                '    2*|3*) echo "HTTPS check returned $code" ;;',
                '    *) echo "ERROR: HTTPS check returned $code"; exit 1 ;;',
                "esac",
            ]
        )

    # Config file generators

    def wp_config(self) -> str:
        """wp-config.php contents."""
        auth_keys = "\n".join(
            f"define('{name}', '{value}');" for name, value in self.auth_keys.items()
        )
        title = self.site_title.replace("*/", "")
        return f"""<?php
/** Site: {title} */

/** WordPress Database Configuration */
define('DB_NAME',     '{self.db_name}');
define('DB_USER',     '{self.db_user}');
define('DB_PASSWORD', '{self.db_password}');
define('DB_HOST',     'localhost');
define('DB_CHARSET',  'utf8mb4');
define('DB_COLLATE',  '');

/** Authentication Unique Keys and Salts */
{auth_keys}

/** Database Table Prefix */
$table_prefix = 'wp_';

/** Debugging (disable in production) */
define('WP_DEBUG',         false);
define('WP_DEBUG_LOG',     false);
define('WP_DEBUG_DISPLAY', false);

/** Security Hardening */
define('DISALLOW_FILE_EDIT', true);
define('WP_AUTO_UPDATE_CORE', 'minor');

/** Force SSL */
define('FORCE_SSL_ADMIN', true);
if (isset($_SERVER['HTTP_X_FORWARDED_PROTO']) && $_SERVER['HTTP_X_FORWARDED_PROTO'] === 'https') {{
    $_SERVER['HTTPS'] = 'on';
}}

/** WordPress URLs */
define('WP_SITEURL', 'https://{self.domain}');
define('WP_HOME',    'https://{self.domain}');

/** Absolute path to WordPress directory */
if (!defined('ABSPATH')) {{
    define('ABSPATH', __DIR__ . '/');
}}

/** Sets up WordPress vars and included files */
require_once ABSPATH . 'wp-settings.php';"""

    def nginx_vhost(self) -> str:
        """Nginx server block for the site."""
        d = self.domain
        return f"""server {{
    listen 80;
    listen [::]:80;
    server_name {d};
    root {self.web_root};
    index index.php index.html index.htm;

    add_header X-Frame-Options "SAMEORIGIN" always;
    add_header X-Content-Type-Options "nosniff" always;
    add_header Referrer-Policy "strict-origin-when-cross-origin" always;

    access_log /var/log/nginx/{d}.access.log;
    error_log  /var/log/nginx/{d}.error.log;

    client_max_body_size 64M;

    gzip on;
    gzip_vary on;
    gzip_proxied any;
    gzip_comp_level 6;
    gzip_types text/plain text/css application/json application/javascript text/xml application/xml application/xml+rss text/javascript image/svg+xml;

    location / {{
        try_files $uri $uri/ /index.php?$args;
    }}

    location ~ \\.php$ {{
        include snippets/fastcgi-php.conf;
        fastcgi_pass unix:{self.fpm_socket};
    }}

    location ~ /\\. {{
        deny all;
    }}

    location ~* /(wp-config\\.php|readme\\.html|license\\.txt) {{
        deny all;
    }}

    location ~* \\.(css|gif|ico|jpeg|jpg|js|png|svg|woff|woff2|ttf|eot)$ {{
        expires 30d;
        add_header Cache-Control "public, immutable";
    }}
}}"""

    def certbot_config(self) -> str:
        """certbot --config ini; keeps the admin email off the command line."""
        return "\n".join(
            [
                "authenticator = nginx",
                "installer = nginx",
                f"domains = {self.domain}",
                f"email = {self.admin_email}",
                "agree-tos = true",
                "non-interactive = true",
                "redirect = true",
                "keep-until-expiring = true",
            ]
        )
