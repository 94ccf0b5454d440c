"""VoxReply: answers WhatsApp-style voice notes with generated voice notes."""

__version__ = "0.1.0"
