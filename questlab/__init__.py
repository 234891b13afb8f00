"""questlab - provision containerized lab nodes for training quests."""
