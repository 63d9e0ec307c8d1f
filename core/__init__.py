# Core package - foundational components
#
# Modules:
# - config: Service settings and injected client preferences
# - logging: Structured logging
# - cache: In-memory query cache with prefix invalidation
