"""Commands, key bindings, configuration, speaker notes, snippet execution and number padding for terminal slideshows."""

__version__ = "0.1.0"

__all__ = ["commands", "config", "execute", "keyboard", "padding", "speaker_notes"]