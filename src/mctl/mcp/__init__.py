"""MCP stdio server exposing fleet operations as tools."""
