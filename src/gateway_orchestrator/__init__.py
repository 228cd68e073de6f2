"""Payment gateway orchestration layer.

Tracks independently configured payment providers, keeps exactly one of them
primary, caches provider health off the checkout path, selects a provider for
each payment and keeps transaction counters consistent under concurrency.
"""

__version__ = "0.1.0"
