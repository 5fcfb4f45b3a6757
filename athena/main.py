"""
Main entry point for the Athena platform.
"""

import logging
from datetime import date, timedelta
from typing import Optional

from .api.rest_api import AthenaRestAPI
from .config import load_config
from .core.audit import AuditTrail
from .core.enums import Role, SyncMode
from .core.exceptions import AthenaException
from .core.policy_engine import RuleBasedPolicyChecker
from .persistence import DocumentStoreFactory
from .services import (
    AuthorizationGateway, ConcurrencyManager, IdentityResolverFactory, RoleSyncingIdentityResolver,
    PolicyCheckerFactory, StaticIdentityResolver
)


logger = logging.getLogger(__name__)


class AthenaPlatform:
    """Main platform class that wires configuration, backends and the API."""

    def __init__(self, config: Optional[dict] = None):
        self._config = config if config is not None else load_config()
        self._store = None
        self._policy = None
        self._identity_resolver = None
        self._request_resolver = None
        self._concurrency_manager = None
        self._audit_trail = None
        self._gateway = None
        self._rest_api = None

        # Initialize platform
        self._initialize_platform()

    @property
    def gateway(self) -> AuthorizationGateway:
        return self._gateway

    @property
    def identity_resolver(self):
        return self._request_resolver

    @property
    def app(self):
        return self._rest_api.app

    def _backend_config(self, key: str, remote_types) -> dict:
        """Backend kwargs, with the shared request timeout for networked backends."""
        backend_config = dict(self._config.get(f'{key}_config', {}))
        if self._config.get(f'{key}_type', '').lower() in remote_types:
            backend_config.setdefault('timeout', self._config.get('request_timeout', 5.0))
        return backend_config

    def _initialize_platform(self):
        """Initialize the platform with all services."""
        logger.info("Initializing Athena platform...")

        # Initialize document store
        store_type = self._config.get('store_type', 'memory')
        self._store = DocumentStoreFactory.create_store(store_type, **self._backend_config('store', ('rest',)))
        logger.info("Document store initialized: %s", store_type)

        # Initialize identity resolver
        identity_type = self._config.get('identity_type', 'static')
        self._identity_resolver = IdentityResolverFactory.create_resolver(
            identity_type, **self._backend_config('identity', ('rest',))
        )
        logger.info("Identity resolver initialized: %s", identity_type)

        # Initialize policy checker
        policy_type = self._config.get('policy_type', 'rules')
        self._policy = PolicyCheckerFactory.create_checker(
            policy_type, **self._backend_config('policy', ('remote',))
        )
        self._request_resolver = self._identity_resolver
        if isinstance(self._policy, RuleBasedPolicyChecker):
            # The rule checker learns roles from the principals the API resolves.
            rules = self._policy
            self._request_resolver = RoleSyncingIdentityResolver(
                self._identity_resolver,
                lambda principal: rules.assign_role(principal.id, principal.role)
            )
        logger.info("Policy checker initialized: %s", policy_type)

        self._concurrency_manager = ConcurrencyManager(
            max_retries=self._config.get('max_retries', 3),
            backoff_factor=self._config.get('retry_backoff', 0.05),
            max_workers=self._config.get('max_workers', 4)
        )
        self._audit_trail = AuditTrail(max_entries=self._config.get('audit_max_entries', 1000))

        self._gateway = AuthorizationGateway(
            self._store,
            self._policy,
            concurrency_manager=self._concurrency_manager,
            audit_trail=self._audit_trail,
            sync_mode=SyncMode(self._config.get('sync_mode', SyncMode.INLINE.value)),
            collections=self._config.get('collections')
        )

        self._rest_api = AthenaRestAPI(
            self._gateway,
            self._request_resolver,
            cors_origins=self._config.get('cors_origins')
        )
        logger.info("Athena platform initialized successfully")

    def start_rest_server(self, host: Optional[str] = None, port: Optional[int] = None):
        """Serve the REST API until interrupted."""
        import uvicorn

        host = host or self._config.get('host', '0.0.0.0')
        port = port or self._config.get('port', 8080)
        logger.info("REST server starting on %s:%s", host, port)
        uvicorn.run(self._rest_api.app, host=host, port=port,
                    log_level=str(self._config.get('log_level', 'info')).lower())

    def stop_platform(self):
        """Flush background work."""
        if self._concurrency_manager:
            self._concurrency_manager.cleanup()
        logger.info("Athena platform stopped")

    def run_demo(self):
        """Walk through the main flows against in-process backends."""
        if not isinstance(self._identity_resolver, StaticIdentityResolver) or \
                not isinstance(self._policy, RuleBasedPolicyChecker):
            raise AthenaException("Demo mode needs the static identity resolver and rule-based policies")

        print("Running Athena demonstration...")
        people = {}
        for token, user_id, role in (("admin-token", "admin-1", Role.ADMIN),
                                     ("teacher-token", "teacher-1", Role.TEACHER),
                                     ("other-teacher-token", "teacher-2", Role.TEACHER),
                                     ("student-token", "student-1", Role.STUDENT)):
            principal = self._identity_resolver.register(token, user_id, [role.value])
            self._policy.assign_role(principal.id, principal.role)
            people[user_id] = principal

        gateway = self._gateway
        course = gateway.create_course(people["teacher-1"], "Introduction to Computer Science",
                                       "Basic concepts of programming")
        print(f"Teacher created course {course.id}: {course.title}")

        other = gateway.create_course(people["admin-1"], "Linear Algebra",
                                      "Vector spaces", teacher_id="teacher-2")
        print(f"Admin created course {other.id} for {other.teacher_id}")

        due = (date.today() + timedelta(days=7)).isoformat()
        assignment = gateway.create_assignment(people["teacher-1"], course.id, "Homework 1", due)
        print(f"Teacher created assignment {assignment.id} due {assignment.due_date}")

        course = gateway.enroll_in_course(people["student-1"], course.id)
        print(f"Student enrolled; course now has students {course.student_ids}")
        try:
            gateway.enroll_in_course(people["student-1"], course.id)
        except AthenaException as e:
            print(f"Second enrollment rejected: {e.message}")

        submission = gateway.submit_assignment(people["student-1"], assignment.id, "print('hello')")
        print(f"Student submitted {submission.id}")
        graded = gateway.grade_submission(people["teacher-1"], submission.id, 95, "Well done")
        print(f"Teacher graded submission: {graded.grade} ({graded.feedback})")

        for user_id in ("teacher-1", "teacher-2", "student-1", "admin-1"):
            listing = gateway.list_courses(people[user_id])
            print(f"{user_id} sees {listing.total} course(s)")

        print(f"Audit trail holds {len(self._audit_trail.entries())} entries, "
              f"chain intact: {self._audit_trail.verify()}")
        print("Demo completed")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Athena Course Management Platform")
    parser.add_argument("--host", type=str, help="REST server host")
    parser.add_argument("--port", type=int, help="REST server port")
    parser.add_argument("--demo", action="store_true", help="Run demo mode")
    parser.add_argument("--config", type=str, help="Configuration file path")

    args = parser.parse_args()

    # Load configuration
    config = load_config(args.config)
    logging.basicConfig(
        level=str(config.get('log_level', 'INFO')).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    platform = AthenaPlatform(config)

    try:
        if args.demo:
            platform.run_demo()
        else:
            platform.start_rest_server(args.host, args.port)
    except KeyboardInterrupt:
        print("\nShutting down...")
    finally:
        platform.stop_platform()


if __name__ == "__main__":
    main()
