"""Service layer for invoicing, purchases, returns and the cash drawer."""
