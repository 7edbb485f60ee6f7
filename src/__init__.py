"""
CoachBook - session booking and scheduling for coaching businesses.

This package contains the complete application:
- core: Framework-agnostic booking logic
- infrastructure: Session store implementations (in-memory, MongoDB)
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
