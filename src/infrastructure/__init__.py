"""Infrastructure layer: relational persistence and change messaging.

- **database**: Records, sessions and the generic collection manager
- **messaging**: Change notifier and broker implementations
"""
