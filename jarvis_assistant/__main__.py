"""
Entry point for running jarvis-assistant as a module.

Usage: python -m jarvis_assistant
"""

from jarvis_assistant.cli import main

if __name__ == "__main__":
    main()
