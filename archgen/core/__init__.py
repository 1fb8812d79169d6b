"""Settings, OpenAI client, SSE transport and prompts."""
