"""Stage orchestrators."""
