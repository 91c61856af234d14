"""Composer, accessors, stream reassembly, transport and the client facade."""
