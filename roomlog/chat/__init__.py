"""Room operations and result formatting for front ends."""
