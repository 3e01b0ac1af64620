"""Auth module"""

from .supabase import AccessBackend, SupabaseAccessClient

__all__ = ["AccessBackend", "SupabaseAccessClient"]
