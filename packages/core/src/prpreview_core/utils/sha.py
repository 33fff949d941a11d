SHORT_SHA_LEN = 7


def short_sha(sha: str) -> str:
    return sha[:SHORT_SHA_LEN]
