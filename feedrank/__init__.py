"""Content ranking, feed assembly and friend suggestions for the social feed."""
