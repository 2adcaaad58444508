"""Turning files into embeddable chunks: enumeration, hashing, chunking, embedding."""
