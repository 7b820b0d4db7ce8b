"""ScriptMaster: turn a narration script into a scene plan and rendered stills."""

__version__ = "0.1.0"
