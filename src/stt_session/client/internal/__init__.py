"""Implementation modules for the transcription session client."""
