"""Services package - business logic kept out of the blueprints."""
