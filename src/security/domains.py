"""Well-known email domain lists."""

# Free webmail providers. Submissions from these are legitimate but say
# nothing about the submitter's company.
FREE_EMAIL_DOMAINS = frozenset(
    {
        "aol.com",
        "gmail.com",
        "googlemail.com",
        "gmx.com",
        "gmx.de",
        "hotmail.com",
        "hotmail.co.uk",
        "icloud.com",
        "live.com",
        "mail.com",
        "mail.ru",
        "me.com",
        "msn.com",
        "outlook.com",
        "proton.me",
        "protonmail.com",
        "qq.com",
        "web.de",
        "yahoo.com",
        "yahoo.co.uk",
        "yandex.com",
        "yandex.ru",
        "zoho.com",
    }
)

# Throwaway inbox services
DISPOSABLE_EMAIL_DOMAINS = frozenset(
    {
        "10minutemail.com",
        "discard.email",
        "dispostable.com",
        "getnada.com",
        "guerrillamail.com",
        "maildrop.cc",
        "mailinator.com",
        "mintemail.com",
        "sharklasers.com",
        "temp-mail.org",
        "tempmail.com",
        "throwawaymail.com",
        "trashmail.com",
        "yopmail.com",
    }
)


def _matches(domain: str, domains: frozenset[str]) -> bool:
    """Match a domain or any of its parent domains against a set."""
    parts = domain.lower().split(".")
    return any(".".join(parts[i:]) in domains for i in range(len(parts) - 1))


def is_free_email_domain(domain: str) -> bool:
    return _matches(domain, FREE_EMAIL_DOMAINS)


def is_disposable_domain(domain: str) -> bool:
    return _matches(domain, DISPOSABLE_EMAIL_DOMAINS)


def is_listed(domain: str, domains: frozenset[str]) -> bool:
    """Whether ``domain`` or a parent domain appears in ``domains``."""
    return _matches(domain, domains)
