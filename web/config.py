"""
Web API configuration.
"""
from amy.config import config, VERSION

# Web server settings
WEB_HOST = config.web.host
WEB_PORT = config.web.port

# OAuth callback redirects back to the dashboard admin page
ADMIN_REDIRECT_URL = f"{config.web.frontend_url.rstrip('/')}{config.web.admin_path}"

RATE_LIMIT = f"{config.web.rate_limit_per_minute}/minute"

__all__ = ["WEB_HOST", "WEB_PORT", "ADMIN_REDIRECT_URL", "RATE_LIMIT", "VERSION"]
