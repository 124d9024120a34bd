from neurostudy.clients.crossref_client import CrossRefClient
from neurostudy.clients.groq_client import GroqClient

__all__ = ["CrossRefClient", "GroqClient"]
