"""Test-runner configuration."""

from hypothesis import settings

# Some property tests persist state to disk on every example; wall-clock
# timing varies by host, so don't fail examples on Hypothesis' per-example deadline.
settings.register_profile("default", deadline=None)
settings.load_profile("default")
