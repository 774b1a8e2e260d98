"""Database layer: async engines, sessions and ORM models for both stores."""
