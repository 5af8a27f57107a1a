"""Project-level conftest for machine.

Registers the shared fixture module. This must live in a top-level conftest.py
(pytest disallows pytest_plugins in non-top-level conftest files).
"""

from imbue.machine.utils.logging import suppress_warnings

suppress_warnings()

pytest_plugins = [
    "imbue.machine.fixtures",
]
