"""Entry point for `python -m statehistory`.

Usage:
    python -m statehistory
    uv run python -m statehistory
"""

from __future__ import annotations

import asyncio

from statehistory.app import main

asyncio.run(main())
