"""
Entry point for running LLM SERP Tracker as a module.

    python -m llm_serp_tracker run --config tracker.config.yaml
"""

from llm_serp_tracker.cli import app

if __name__ == "__main__":
    app()
