"""Backend-for-frontend for contact-center call recordings."""
