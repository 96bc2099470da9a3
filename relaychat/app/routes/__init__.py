"""relaychat Routes Package.

- health: Health check and monitoring endpoints
- chat: Chat streaming and provider listing endpoints
"""
from relaychat.app.routes import chat, health

__all__ = ["chat", "health"]
