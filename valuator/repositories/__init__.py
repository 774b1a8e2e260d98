"""Repository layer: async data access for the business and market stores."""
