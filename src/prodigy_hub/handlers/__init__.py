"""Lambda entry points of the ProdigyHub service."""
