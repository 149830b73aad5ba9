# backend/devserver.py
"""
Local development server with the access checks switched off.

Run with: python devserver.py

Only this module knows AllowAllPolicy. The packaged application factory
always installs the real DecisionPolicy, and this file is not part of the
installed distribution.
"""

import os

from coreaccess import create_app
from coreaccess.services.access_engine import POLICY_EXTENSION_KEY, Decision, DecisionPolicy


class AllowAllPolicy(DecisionPolicy):
    """Grants every module, permission, feature and limit check."""

    name = "allow-all"

    def decide(self, member, subscription, module, location_id=None, *, platform_admin=False) -> Decision:
        return Decision.allow(platform_admin=platform_admin)

    def has_permission(self, member, permission, location_id=None, *, platform_admin=False) -> bool:
        return True

    def check(self, member, subscription, capability, location_id=None, *, platform_admin=False) -> Decision:
        return Decision.allow(platform_admin=platform_admin)

    def membership(self, member, *, platform_admin=False):
        return None

    def decide_feature(self, subscription, feature, *, platform_admin=False) -> Decision:
        return Decision.allow(platform_admin=platform_admin)

    def check_limit(self, subscription, limit_key, *, platform_admin=False) -> Decision:
        return Decision.allow(platform_admin=platform_admin)


def create_dev_app(config_overrides=None):
    app = create_app(config_overrides)
    app.extensions[POLICY_EXTENSION_KEY] = AllowAllPolicy()
    app.logger.warning("Access checks are DISABLED (policy=%s); development use only", AllowAllPolicy.name)
    return app


if __name__ == "__main__":
    create_dev_app().run(debug=True, port=int(os.environ.get("PORT", "5000")))
