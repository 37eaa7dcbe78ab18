"""Discovery and default-credential negotiation for eSpace IP phones."""
