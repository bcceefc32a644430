DISPOSABLE_EMAIL_DOMAINS = frozenset(
    {
        "10minutemail.com",
        "guerrillamail.com",
        "mailinator.com",
        "tempmail.org",
        "yopmail.com",
        "throwaway.email",
    }
)


def email_domain(email: str) -> str | None:
    _, sep, domain = email.strip().lower().rpartition("@")
    return domain if sep and domain else None


def is_disposable_domain(domain: str | None, extra: frozenset[str] = frozenset()) -> bool:
    if not domain:
        return False
    domains = DISPOSABLE_EMAIL_DOMAINS | extra
    # subdomains of a disposable provider count too
    parts = domain.split(".")
    return any(".".join(parts[index:]) in domains for index in range(len(parts) - 1))


__all__ = ("DISPOSABLE_EMAIL_DOMAINS", "email_domain", "is_disposable_domain")
