# This module handles the conversation context of a run

# +---------------------+
# |      Store          |   (External, persistent)
# |---------------------|
# | Projects            |
# | Routes              |
# +---------------------+

# +---------------------+
# |   Bounded history   |   (Per run, capped per role)
# |---------------------|
# | System prompt       |
# | User input          |
# | Tool results        |
# | Assistant turns     |
# +---------------------+
#         |
#         v
#   [LLM / tool call]
