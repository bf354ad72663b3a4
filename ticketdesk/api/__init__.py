"""HTTP surface of the ticketdesk service."""
