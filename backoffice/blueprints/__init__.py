"""HTTP blueprints: auth, invoices, reports."""
