"""Service layer: scope resolution, materialization, method registry and valuation preview."""
