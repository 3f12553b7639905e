"""Example usage of the typed_yaml library."""

from dataclasses import dataclass

from typed_yaml import Config, ConfigFlag, SchemaParser, copy, free, load_bytes, save_bytes


@dataclass
class Person:
    name: str = ""
    age: int = 0
    langs: int = 0


# Define the document layout using the DSL
types = """
flags Lang { python, c, yaml }

Person {
    name: string(1, 64)*
    age: uint8
    langs?: Lang = [yaml]
}

Team {
    title: string*
    members: Person[](1, 16)
}

root Team
"""

document = """
title: Bindings
members:
  - &alice {name: Alice, age: 30, langs: [python, c]}
  - {name: Bob, age: 25}
  - *alice
"""

schema = SchemaParser(classes={"Person": Person}).parse(types).root
config = Config(flags=ConfigFlag.STYLE_BLOCK)

# Load the document into Python records
team, _ = load_bytes(document, config, schema)

print(f"Team: {team['title']}")
for member in team["members"]:
    print(f"  {member.name}, age {member.age}, langs {member.langs:#x}")

# Copies share nothing with the loaded tree
clone = copy(config, schema, team)
clone["members"][1].age += 1

print("\nSaved copy:")
print(save_bytes(config, schema, clone).decode("utf-8"))

free(config, schema, clone)
free(config, schema, team)
