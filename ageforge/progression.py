"""Era progression: ordering and advancement requirements."""


class AgeProgression:
    """Ordered eras and the thresholds for entering each one."""

    def __init__(self, age_defs):
        self.defs = sorted(age_defs, key=lambda age: age.get('order', 0))
        self.order = [age['key'] for age in self.defs]
        self.by_key = {age['key']: age for age in self.defs}

    def index(self, key):
        return self.order.index(key)

    def get(self, key):
        return self.by_key[key]

    def next_age(self, current):
        """Definition of the era after `current`, or None at the last one."""
        idx = self.index(current) + 1
        if idx >= len(self.order):
            return None
        return self.defs[idx]

    def requirements(self, age_def):
        """Yield (kind, key, required) for every threshold of an era."""
        for res, required in age_def.get('resource_reqs', {}).items():
            yield 'resource', res, required
        for bld, required in age_def.get('building_reqs', {}).items():
            yield 'building', bld, required

    def requirements_met(self, age_def, amounts, counts):
        for kind, key, required in self.requirements(age_def):
            source = amounts if kind == 'resource' else counts
            if source.get(key, 0) < required:
                return False
        return True

    def progress(self, current, amounts, counts):
        next_def = self.next_age(current)
        if next_def is None:
            return None
        items = []
        for kind, key, required in self.requirements(next_def):
            have = (amounts if kind == 'resource' else counts).get(key, 0)
            items.append({
                'kind': kind,
                'key': key,
                'current': have,
                'required': required,
                'ratio': 1.0 if required <= 0 else min(have / required, 1.0),
            })
        return {
            'next_age': next_def['key'],
            'name': next_def.get('name', next_def['key']),
            'requirements': items,
            'ready': all(item['current'] >= item['required'] for item in items),
        }
