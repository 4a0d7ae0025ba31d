"""iptables services for xtctl."""
