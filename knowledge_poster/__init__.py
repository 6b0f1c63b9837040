"""Knowledge poster generation package.

Turns the content of a markdown note into an AI-generated poster image by chaining
a text-generation provider (prompt authoring) and an image-generation provider,
then saving the image and embedding it back into the note.
"""

__version__ = "0.1.0"
