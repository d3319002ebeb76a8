"""Application layers built on the SkillGraph core: curriculum, activities, and the HTTP API."""
