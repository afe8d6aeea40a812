"""In-memory business directory."""

from consults.business.port import BusinessDirectory, BusinessProfile


class InMemoryBusinessDirectory(BusinessDirectory):
    def __init__(self):
        self.businesses: dict[str, BusinessProfile] = {}

    def register(self, business_id, name=None, **settings):
        profile = BusinessProfile(id=str(business_id), name=name or str(business_id), settings=settings)
        self.businesses[profile.id] = profile
        return profile

    def get_business(self, business_id):
        return self.businesses.get(str(business_id))

    def reset(self):
        self.businesses.clear()
