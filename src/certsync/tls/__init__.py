"""Key/certificate material, the live certificate store and the HTTPS listener."""
