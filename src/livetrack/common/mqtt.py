def get_tls_value(topic: str, level_name: str) -> str|None:
    # the value of a named level is the level directly following its name
    levels: list[str] = topic.split('/')
    if level_name in levels:
        index: int = levels.index(level_name)
        if index + 1 < len(levels):
            return levels[index + 1]

    return None
