"""
Core engine for the recovery kernel.

Modules:
- config: quorum constants, identity limits, logging settings.
- observability: logging setup and invocation correlation.
- errors: refusal taxonomy.
- primitives: Principal, RecoveryRequest, Notification, Call.
- access_registry / guardian_set / recovery: authorization state.
- reentrancy / call_bus / batch_executor: privileged external execution.
- engine: the enclosing AuthorizationEngine.
"""
