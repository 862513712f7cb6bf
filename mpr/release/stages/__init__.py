"""Stage bodies. Each delegates its real work to an external tool."""
