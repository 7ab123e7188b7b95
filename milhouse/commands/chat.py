"""
mil chat - Interactive session for shaping requirements.
"""

from pathlib import Path

from milhouse.agents.claude import AgentLaunchError, ClaudeAgent, ExecuteOptions
from milhouse.lib.config import ConfigError, load_config
from milhouse.lib.constants import DEFAULT_ALLOWED_TOOLS, EXIT_CONFIG, EXIT_ERROR, PHASE_CHAT, PRD_FILE, PROGRESS_FILE, PROMPT_FILE
from milhouse.lib.context import chat_context
from milhouse.lib.prompts import PromptError, render
from milhouse.prd.paths import milhouse_exists, milhouse_path, store_path
from milhouse.prd.store import StoreError, load_store


def cmd_chat(args, base_path: Path) -> int:
    if not milhouse_exists(base_path):
        print("ERROR: Not a milhouse project. Run 'mil init' first.")
        return EXIT_CONFIG

    try:
        config = load_config(base_path)
    except ConfigError as e:
        print(f"ERROR: {e}")
        return EXIT_CONFIG

    try:
        store = load_store(store_path(base_path))
    except StoreError as e:
        print(f"WARNING: {e}")
        store = None

    try:
        system_prompt = render(PHASE_CHAT, chat_context(base_path, store))
    except PromptError as e:
        print(f"ERROR: {e}")
        return EXIT_ERROR

    options = ExecuteOptions(
        prompt="",
        model=args.model or config.phase(PHASE_CHAT).model,
        work_dir=base_path,
        allowed_tools=list(DEFAULT_ALLOWED_TOOLS),
        context_files=[milhouse_path(base_path, name) for name in (PRD_FILE, PROGRESS_FILE, PROMPT_FILE)],
        system_prompt=system_prompt,
    )
    try:
        return ClaudeAgent(config.binary).execute_interactive(options)
    except AgentLaunchError as e:
        print(f"ERROR: {e}")
        return EXIT_ERROR
