"""Study assistant: document upload, retrieval and AI study tools."""
