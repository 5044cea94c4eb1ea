"""aiohttp applications for the bus and the services around it."""
