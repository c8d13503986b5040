"""Transport tools used by apiprobe testers."""
