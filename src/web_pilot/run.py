# run.py
# Entry point. Config and wiring only. No logic lives here.
#
# Uses the dry-run capability provider, so the planner talks to a real
# model but no browser is driven. Plug a real provider into Navigator to
# automate a live page.

import asyncio
import sys

from web_pilot.capabilities import DryRunCapabilities
from web_pilot.config import NavigatorConfig
from web_pilot.navigator import EXAMPLE_PROMPTS, Navigator


async def _run(prompts: list[str]) -> None:
    config = NavigatorConfig.from_env()
    for prompt in prompts:
        # One navigator per task: each task owns its own session.
        navigator = Navigator.from_config(config, DryRunCapabilities())
        result = await navigator.run(prompt)
        print(f"\n[RESULT]\n{result.model_dump_json(indent=2)}\n")


def main() -> None:
    task = " ".join(sys.argv[1:]).strip()
    prompts = [task] if task else list(EXAMPLE_PROMPTS.values())
    asyncio.run(_run(prompts))


if __name__ == "__main__":
    main()
