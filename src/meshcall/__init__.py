"""Room coordination core for peer-to-peer media sessions."""
